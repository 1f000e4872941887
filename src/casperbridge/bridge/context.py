"""Explicit per-relayer context: configuration plus log routing."""

from dataclasses import dataclass, field, replace
from typing import Optional

from ..logging import LogContext, LogLevel, LogManager, RelayLogger, setup_logging
from .config import RelayerConfig


@dataclass
class BridgeContext:
    """Constructed once at startup and handed to every component."""

    config: RelayerConfig
    log_manager: LogManager = field(default=None)

    def __post_init__(self) -> None:
        if self.log_manager is None:
            self.log_manager = setup_logging(
                level=LogLevel.parse(self.config.log_level),
                log_dir=self.config.log_dir,
                relayer_id=self.config.relayer_id,
            )
        elif self.log_manager.get_context().relayer_id is None:
            self.log_manager.set_context(
                replace(self.log_manager.get_context(), relayer_id=self.config.relayer_id)
            )

    def get_logger(
        self,
        name: str,
        component: Optional[str] = None,
        chain: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> RelayLogger:
        """Logger whose entries carry the given component/chain/direction."""
        if component is None and chain is None and direction is None:
            return self.log_manager.get_logger(name)
        return self.log_manager.get_logger(
            name, LogContext(component=component, chain=chain, direction=direction)
        )

    def close(self) -> None:
        self.log_manager.shutdown()

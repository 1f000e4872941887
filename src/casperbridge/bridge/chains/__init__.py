"""Chain-specific gateways, decoders and transaction builders."""

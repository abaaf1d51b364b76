"""Infrastructure layer: configuration, wallets, connection lifecycle."""

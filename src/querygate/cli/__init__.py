"""QueryGate command-line interface."""

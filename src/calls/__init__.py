"""Per-call conversation core: session state machine, registry and transport adapter."""

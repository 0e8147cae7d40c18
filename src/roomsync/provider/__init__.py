"""Connection lifecycle, local-channel mirroring, liveness, and orchestration."""

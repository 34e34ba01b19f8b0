"""HTTP sidecar for plyra-rollback (requires the ``sidecar`` extra)."""

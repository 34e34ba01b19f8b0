"""
plyra-rollback — HTTP Sidecar Usage Example
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Shows spinning up the HTTP sidecar and the endpoints available.

To run:
    python examples/sidecar_usage.py

Then from another terminal:
    curl http://localhost:8080/health
    curl -X POST http://localhost:8080/points \
         -H "Content-Type: application/json" \
         -d '{"kind": "config", "description": "pool size", "version": "v7", "environment": "staging", "created_by": "alice"}'
"""

from plyra_rollback import RollbackService


def main() -> None:
    print("=" * 60)
    print("plyra-rollback — HTTP Sidecar")
    print("=" * 60)
    print()
    print("Starting sidecar server...")
    print()
    print("Available endpoints:")
    print("  POST /points                    — Capture a rollback point")
    print("  GET  /points                    — List rollback points")
    print("  POST /points/{id}/plans         — Build a rollback plan")
    print("  POST /plans/{id}/execute        — Start an execution")
    print("  GET  /executions/{id}           — Poll an execution")
    print("  POST /executions/{id}/cancel    — Cancel an execution")
    print("  GET  /audit                     — Query audit log")
    print("  GET  /metrics                   — Prometheus metrics")
    print("  GET  /health                    — Health check")
    print()

    service = RollbackService.default()

    try:
        service.serve(host="0.0.0.0", port=8080)
    except ImportError:
        print("ERROR: FastAPI and uvicorn are required.")
        print("Install with: pip install plyra-rollback[sidecar]")
    except KeyboardInterrupt:
        print("\nServer stopped.")


if __name__ == "__main__":
    main()

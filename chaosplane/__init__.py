"""
Chaosplane: chaos-engineering control plane.

Architecture:
    chaosplane/
    ├── api/             # FastAPI routers (REST layer)
    ├── rpc/             # JSON-RPC mirror of the experiment operations
    ├── middleware/      # Audit, bearer auth, idempotency, error handling
    ├── schemas/         # Pydantic request/response models
    ├── db/              # SQLAlchemy models, engine, record store, migrations
    ├── executors/       # Executor contract + os / jvm / cri executors
    ├── services/        # Dispatcher, experiment / preparation lifecycle
    └── specs/           # Declarative executor bundles (YAML)

Data Flow:
    Request → Auth → Idempotency → Experiment Service
    → Record Store (Created) → Dispatcher → Executor → Record Store (Success | Error)

Version: 1.0.0
"""

__version__ = "1.0.0"

"""
# Services Package

Business logic of the governance core:

- **`policy_engine`**: Pure permission predicates.
- **`content_lifecycle`**: Status state machine, content creation and edits.
- **`interaction_ledger`**: Likes/dislikes toggles and recorded interactions.
- **`moderation_workflow`**: Threaded comments and approval.
- **`analytics_aggregator`**: View/session ingestion and rollups.
- **`enrichment_service`**: Best-effort location/device enrichment.

Each service module exposes its class and a module-level instance wired to `MongoStorage`.
"""

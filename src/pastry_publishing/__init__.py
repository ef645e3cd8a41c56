"""
# Pastry Publishing

The **content governance and interaction core** of a multi-tenant publishing platform for
sites, blogs and recipes.

## Architecture Overview

```
┌─────────────────────────────────────────────────────────────┐
│         Request boundary (FastAPI routes, out of tree)       │
│   resolve_actor() ──► services ──► to_http_exception()       │
├─────────────────────────────────────────────────────────────┤
│  PolicyEngine        pure role/ownership predicates          │
│  ContentLifecycle    status state machine, publish times     │
│  InteractionLedger   likes/dislikes toggles, share/save...   │
│  ModerationWorkflow  threaded comments and approval          │
│  AnalyticsAggregator views, sessions, rollups (async feed)   │
├─────────────────────────────────────────────────────────────┤
│  Storage (MongoStorage over Motor) + governance indexes      │
└─────────────────────────────────────────────────────────────┘
```

Every mutation is authorized by the policy engine before anything is written. Analytics ingestion is
fire-and-forget and never fails the request that triggered it.
"""

__version__ = "0.1.0"

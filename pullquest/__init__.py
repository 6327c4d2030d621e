"""
PullQuest — Stake Coins on GitHub Issues, Earn XP on Merge
===========================================================
A gamification layer over GitHub issues.  Contributors stake virtual coins
against issues; when their pull request is merged they earn the bounty and
XP, climb the rank ladder, and get a monthly coin allowance to keep playing.

Package layout::

    pullquest/
    ├── __main__.py        # python -m pullquest → uvicorn
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Economy constants, rank ladder, TTLs
    ├── errors.py          # Structured error kinds
    ├── scheduler.py       # Monthly refill background loop
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (accounts, stakes, snapshots, ledger)
    ├── engine/
    │   ├── reward.py      # Difficulty / bounty / XP / hours estimation
    │   ├── rank.py        # XP → rank ladder
    │   ├── freshness.py   # TTL freshness check
    │   └── languages.py   # Repository language statistics
    ├── services/
    │   ├── account_service.py       # Balance mutation + rank sync
    │   ├── stake_service.py         # Stake lifecycle state machine
    │   ├── snapshot_service.py      # Cached analysis upsert / refresh
    │   ├── contributor_service.py   # Analysis + suggested issues
    │   ├── refill_service.py        # Monthly coin allowance
    │   └── reconciliation_service.py # Ledger vs. balance drift check
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # DI: engine, config, JWT account
        ├── rate_limit.py  # Per-account sliding window
        └── routes/        # Stakes, contributor, webhooks, account
"""

__version__ = "0.1.0"

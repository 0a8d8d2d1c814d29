# Pickup SMS - Review Requests & Locker Reminders
# ================================================
# Sends templated SMS to customers who recently collected a stored bag or
# locker item, honouring opt-outs and never sending twice for one booking.
#
# ARCHITECTURE LAYERS:
# - Web:            FastAPI webhooks, operator API and dashboard
# - Application:    Eligibility pipeline, job variants, scheduler
# - Domain:         Phone normalization, message rendering (no I/O)
# - Infrastructure: Postgres source, SQLite stores, SMS gateway, CSV import
#
# Infrastructure components are injected through an explicit AppContext,
# so tests and the CLI can swap any of them.

__version__ = "1.0.0"

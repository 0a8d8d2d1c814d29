# Infrastructure Layer
# ====================
# Contains all external service integrations:
# - config/: Environment and settings management
# - persistence/: SQLite stores and the read-only Postgres booking source
# - sms/: TextMagic gateway and rate-limited sender
# - importer/: Review-link CSV loading
# - templates/: Editable message template files

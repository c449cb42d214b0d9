"""
Services package — business rules on top of the repositories.

Services raise `app.core.errors.AppError` subclasses for expected
failures and never commit; the caller (API dependency, Celery task or
CLI command) owns the transaction.
"""

"""Domain services.

Each service wraps the repositories it needs around one ``AsyncSession``.
Services flush but never commit; the API route or job owns the transaction.
"""

"""
Feature modules for the billing ledger.

Each module is self-contained with its own:
- interfaces.py: Protocol definitions for the module's public API
- models.py: Pydantic models for data transfer
- service.py: Service wiring and business logic entry points
- repository.py: Document store access and mapping
- exceptions.py: Module-specific exceptions

Modules communicate through interfaces, not concrete implementations.
"""

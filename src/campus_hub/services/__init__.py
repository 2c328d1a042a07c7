"""Service layer: database writes, counter reconciliation and change publication."""

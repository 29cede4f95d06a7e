"""
Life Ledger - Source Package

A personal finance and life-admin tracker: expenses, to-dos, reminders,
recurring payments and EMIs, with an admin approval workflow.

DESIGN PRINCIPLES:
1. Registration never grants access - an admin approves first
2. Fail closed, fail visibly
3. One storage backend per process, chosen at startup
4. Every authentication step is auditable
5. Storage layer is swappable (local JSON or Supabase)
"""

__version__ = "1.0.0"
__author__ = "Life Ledger Team"

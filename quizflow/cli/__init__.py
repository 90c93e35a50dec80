"""
Terminal front end for quizflow.

Components:
- bank: JSON question bank loading and exact-match grading
- render: rich panels and tables for snapshots
- main: typer application (play, validate, version)
"""

from .bank import BankQuestion, QuestionBank, grade_answer, load_bank

__all__ = ["BankQuestion", "QuestionBank", "grade_answer", "load_bank"]

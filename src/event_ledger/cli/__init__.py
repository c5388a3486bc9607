"""Command-line interface for the event ledger"""

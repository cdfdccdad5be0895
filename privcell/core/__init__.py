"""Core cell, ledger and storage components"""

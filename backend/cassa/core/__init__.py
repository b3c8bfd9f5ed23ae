"""
Core: configurazione, database, eccezioni e utilità monetarie.
"""

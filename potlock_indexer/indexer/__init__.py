"""
Block-by-block ingestion of Potlock events.
"""

"""
Delivery Dispatch Service - order lifecycle, bulk mutations and audit ledger
"""

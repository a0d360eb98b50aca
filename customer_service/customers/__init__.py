"""
Customer records: storage, ID allocation, business rules and HTTP routes.
"""

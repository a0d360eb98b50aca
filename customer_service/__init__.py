"""
Customer service.

REST CRUD over customer records with JWT authentication and role-based
access control (CUSTOMER vs ADMIN).
"""
from dotenv import load_dotenv

# Settings are read from the environment at import time
load_dotenv()

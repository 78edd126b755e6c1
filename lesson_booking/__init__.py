"""
Lesson booking backend.

Structure:
- config.py         : settings read from the environment (.env)
- db.py             : engine, session factory and transactional session
- models.py         : ORM models (lessons, orders, order items) and enum
- stores.py         : key-indexed persistence for lessons and orders
- reconciler.py     : domain logic (create order, confirm order, patch lessons)
- errors.py         : business error taxonomy
- logging_config.py : loguru setup
- seed.py           : default lesson catalogue
- api_main.py       : FastAPI application
- cli.py            : command line access to the same operations
"""

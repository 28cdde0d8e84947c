"""
petmarket/catalog
-----------------
Shops and products as seen by billing. Catalog CRUD lives in the
marketplace service; this package only models the rows and answers
price lookups.
"""

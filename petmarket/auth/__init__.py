"""
petmarket/auth
--------------
Identity context for billing requests. Employees are authenticated by the
upstream marketplace service, which places `employee_id` and `shop_id` in
the signed session cookie; this package only reads them.
"""

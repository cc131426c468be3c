"""Domain rules that do not depend on storage or transport.

Token lifetime and expiry checks live here so that services and tests share
one definition of "expired" and "used".
"""

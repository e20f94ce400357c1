"""
Query-side building blocks for keyset pagination.

This package contains the cursor codec, ordering normalization, the keyset
predicate builder and the connection assembler that ties them together.
"""

"""
Bookinfo Acceptance Test Harness

End-to-end acceptance tests for the Bookinfo sample application running
behind an Istio service mesh.

Checks, in run order:
    1. Default routing
    2. Version routing (normal-user -> v1, test-user -> v2)
    3. Fault injection (delayed ratings for test-user)
    4. Fault removal
    5. Weighted traffic split (reviews v1/v3)
"""

__version__ = "1.0.0"

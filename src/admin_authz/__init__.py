"""
admin-authz

Authorization decision engine for an automation controller: permission
graph with implication, grant-table strategy, per-field configuration
policy, and the command and form gateways that enforce them.
"""

__version__ = "0.1.0"

"""
BikeShop Service Hub - Services Package

Business logic services. Pure rule modules (ledger, quotation_workflow,
payment_ledger) have no database access; the *_service modules load rows,
apply those rules and persist the result.
"""

"""
Accounts application.

Owns the parties the ledger books money between: collectives (including
hosts and the platform itself), host pricing plans, connected provider
accounts and payout methods.
"""

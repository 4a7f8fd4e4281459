"""
Destructive drive qualification.

Nothing in this package writes to a disk until SafetyGuard has approved
every target and the operator has typed the confirmation token.
"""

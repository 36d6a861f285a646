"""
Order settlement and seller payout engine.
"""

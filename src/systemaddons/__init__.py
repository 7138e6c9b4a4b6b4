"""
systemaddons-versions: track system addon versions shipped with, and offered
to, published browser releases.
"""

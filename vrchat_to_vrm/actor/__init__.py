"""Avatar module: skeleton, source/destination behaviors, and the rig-level
conversion stages (sanitizing, dynamics, expressions, first person).
"""

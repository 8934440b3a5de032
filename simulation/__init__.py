"""
Simulation drivers
"""

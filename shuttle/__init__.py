"""University Shuttle System backend"""

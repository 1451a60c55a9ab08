"""Local Station API"""

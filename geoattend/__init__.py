"""
GeoAttend - GPS-verified event attendance service
"""

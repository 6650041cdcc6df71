"""
Core logic of inkpatch: page geometry, annotations and document export.
"""

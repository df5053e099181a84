"""
Rendering
=========

Browser pool, payload loading, script-literal codec and the render pipeline.
"""

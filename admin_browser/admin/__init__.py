"""
Admin domain: descriptors, registry, containment, associated data,
payload sanitizing and the CRUD controller.
"""

"""
imagist: on-the-fly image transformation proxy.

Import the app factory from 'imagist.main'; this module stays empty so that
importing a submodule never builds an app as a side effect:
    uvicorn imagist.main:create_app --factory
"""

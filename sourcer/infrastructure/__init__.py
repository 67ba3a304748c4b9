"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (the marketplace HTTP API,
disk caches, configuration files, the console) by implementing the
interfaces defined in the domain layer.
"""

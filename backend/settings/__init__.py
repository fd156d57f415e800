"""
Client settings.

Tuned constants of the map client are read from `config/client.yaml`; the models in
`settings.types` carry the defaults used when the file is absent.
"""

"""
Gate (Tor/Tuer) configuration core.

- engine: area calculation, pricing and the wizard state machine
- storage: persisted record shape and the storage collaborator
- state: AppState store mediating between the wizard and storage
"""

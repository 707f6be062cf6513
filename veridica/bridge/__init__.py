"""Bridge layer between Veridica and the systems it does not own.

Modules
-------
ledger
    ``LedgerClient`` Protocol, proof note encoding, and the in-memory
    backend used in development and tests.
algorand
    Algorand backend.  Imports ``algosdk`` (``py-algorand-sdk``, optional
    extra ``algorand``) lazily; a missing SDK surfaces as
    ``LedgerUnavailable``.
directory
    Maps owner ids to public handles shown in conflict messages.
"""

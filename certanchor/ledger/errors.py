"""Ledger failure taxonomy.

  LedgerTimeoutError     network error or no confirmation in time.
                         Retryable; anchoring degrades to "unanchored".
  LedgerRejectedError    the node refused the transaction.
  LedgerResponseError    the node answered with something we cannot
                         interpret.  Never retried, and never read as
                         "certificate invalid": verification reports it
                         as inconclusive.
  LedgerIntegerOverflow  a value does not fit the ledger's uint64 fields.

None of these escape the lifecycle or verification services.
"""

from __future__ import annotations


class LedgerError(Exception):
    retryable = False


class LedgerTimeoutError(LedgerError):
    retryable = True


class LedgerRejectedError(LedgerError):
    pass


class LedgerResponseError(LedgerError):
    pass


class LedgerIntegerOverflow(LedgerError, OverflowError):
    pass

"""Document storage, sharing, required paperwork and blueprint markup."""

class InvalidInputError(ValueError):
    """Raised when genotypes, clusters, hierarchy, or parameters fail validation.

    Raised before any imputation work begins, so the caller's inputs are left untouched.
    """

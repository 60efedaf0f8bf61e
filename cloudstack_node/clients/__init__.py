from .cloudstack import CloudStackAPI, CloudStackAPIError, CloudStackClient, sign_params

__all__ = ["CloudStackAPI", "CloudStackAPIError", "CloudStackClient", "sign_params"]

from marketsync.shipping.api import CarrierAPI
_client = None

def get_carrier_client():
    '''
    Returns a singleton instance of the CarrierAPI class
    '''
    global _client
    if _client is None:
        from marketsync.config import Config as cfg
        _client = CarrierAPI(cfg.CARRIER_API_BASE, timeout=cfg.CARRIER_TIMEOUT_SECONDS)
    return _client

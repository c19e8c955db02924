from psycopg_pool import ConnectionPool

def create_pool(dsn:str, *, max_size:int=4)->ConnectionPool:
    return ConnectionPool(conninfo=dsn, min_size=1, max_size=max_size, open=False, kwargs={'autocommit': False, 'prepare_threshold': 0})

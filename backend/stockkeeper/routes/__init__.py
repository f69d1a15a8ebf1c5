from flask import jsonify

from ..errors import StockError


def error_response(exc: StockError):
    """JSON body and status code for a StockError."""
    return jsonify(exc.to_dict()), exc.http_status

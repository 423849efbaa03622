from flask import jsonify


def ok(data=None, code=200):
    return jsonify(data if data is not None else {}), code


def err(msg, code=400, **extra):
    return jsonify({"error": msg, **extra}), code

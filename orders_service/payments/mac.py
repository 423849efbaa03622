"""MAC signatures for the redirect bank gateway.

Outbound payment requests and inbound callbacks are signed differently and
must stay as two separate algorithms:

* requests sign exactly ``codTrans``, ``divisa`` and ``importo`` in that fixed
  order, lowercase hex;
* callbacks sign every received field except ``mac``, sorted alphabetically,
  uppercase hex.

Both are SHA-1 over ``key=value`` pairs with no separator followed by the
shared secret.
"""
import hashlib
import hmac

REQUEST_FIELDS = ("codTrans", "divisa", "importo")


def sign_payment_request(cod_trans, divisa, importo, secret: str) -> str:
    values = {"codTrans": cod_trans, "divisa": divisa, "importo": importo}
    payload = "".join(f"{k}={values[k]}" for k in REQUEST_FIELDS) + secret
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


def callback_mac(fields: dict, secret: str) -> str:
    payload = "".join(
        f"{k}={fields[k]}" for k in sorted(fields) if k != "mac"
    ) + secret
    return hashlib.sha1(payload.encode("utf-8")).hexdigest().upper()


def verify_callback_mac(fields: dict, secret: str) -> bool:
    received = fields.get("mac")
    if not received or not secret:
        return False
    expected = callback_mac(fields, secret)
    return hmac.compare_digest(str(received).upper(), expected)

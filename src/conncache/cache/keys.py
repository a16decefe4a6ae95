"""Cache keys identifying one connection cache slot."""

from dataclasses import dataclass, field

LOCALHOST_KEY_LENGTH = 8
LOCALHOST_KEY_PADDING = "#"
CLIENT_SECRET_KEY_SEPARATOR = "#"


@dataclass(frozen=True)
class CacheKey:
    """Identity and secret for one cache slot.

    Attributes:
        value: Stable string identifying the logical connection. Two keys with
            the same value address the same slot.
        encryption_key: Secret used to protect the persisted entry. Never
            persisted and excluded from equality and repr.
    """

    value: str
    encryption_key: str = field(compare=False, repr=False)

    @classmethod
    def for_client_secret(
        cls, client_id: str, client_secret: str, account_name: str
    ) -> "CacheKey":
        """Key for connections authenticated with a service account.

        Args:
            client_id: Service account id
            client_secret: Service account secret, also used as encryption key
            account_name: Account the connection belongs to

        Returns:
            CacheKey instance
        """
        value = CLIENT_SECRET_KEY_SEPARATOR.join(
            [client_id, client_secret, account_name]
        )
        return cls(value=value, encryption_key=client_secret)

    @classmethod
    def for_localhost(cls, access_token: str) -> "CacheKey":
        """Key for localhost connections, built from the token prefix.

        Examples:
            >>> CacheKey.for_localhost("abcdefghijk").value
            'abcdefgh'
            >>> CacheKey.for_localhost("abc").value
            'abc#####'
        """
        if len(access_token) > LOCALHOST_KEY_LENGTH:
            value = access_token[:LOCALHOST_KEY_LENGTH]
        else:
            padded = access_token + LOCALHOST_KEY_PADDING * LOCALHOST_KEY_LENGTH
            value = padded[:LOCALHOST_KEY_LENGTH]
        return cls(value=value, encryption_key=access_token)

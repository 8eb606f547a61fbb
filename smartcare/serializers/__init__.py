"""Wire-protocol serializers for the telephony and AI connections."""

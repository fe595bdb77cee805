"""Request handling: dispatcher, negotiation, error pages, controller binding."""

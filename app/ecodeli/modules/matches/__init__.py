"""
Matches: a package travelling on a carrier's ride.

Status changes come from three places: the admin dashboard (free edit),
the carrier (CONFIRMED/IN_TRANSIT/DELIVERED/CANCELLED) and the customer
(validating a delivery, which completes the match and its payment).
"""

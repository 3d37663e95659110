from ridemarket.models.listing import Listing, LISTING_CONDITIONS  # noqa: F401
from ridemarket.models.profile import Profile  # noqa: F401
from ridemarket.models.wishlist import WishlistEntry  # noqa: F401

"""Social publishing -- LinkedIn client and the user-triggered SocialPublisher."""

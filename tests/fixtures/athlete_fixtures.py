"""Athlete fixture data based on strava-api-v3.yaml."""

DETAILED_ATHLETE = {
    "id": 42,
    "username": "marianne_t",
    "resource_state": 3,
    "firstname": "Marianne",
    "lastname": "Teutenberg",
    "city": "San Francisco",
    "state": "CA",
    "country": "US",
    "sex": "F",
    "premium": True,
    "summit": True,
    "created_at": "2017-11-14T02:30:05.000Z",
    "updated_at": "2018-02-06T19:32:20.000Z",
    "badge_type_id": 4,
    "profile_medium": "https://xxxxxx.cloudfront.net/pictures/athletes/42/medium.jpg",
    "profile": "https://xxxxx.cloudfront.net/pictures/athletes/42/large.jpg",
    "follower_count": 5,
    "friend_count": 7,
    "measurement_preference": "meters",
    "weight": 61.5,
}

TOKEN_RESPONSE = {
    "token_type": "Bearer",
    "expires_at": 1_760_003_600,
    "expires_in": 3600,
    "refresh_token": "refresh1",
    "access_token": "tok1",
    "athlete": DETAILED_ATHLETE,
}

TOKEN_ERROR_RESPONSE = {
    "message": "Bad Request",
    "errors": [{"resource": "AuthorizationCode", "field": "code", "code": "invalid"}],
}

"""
Configuration constants
"""

import os

# Deviation classification (metres / seconds / degrees)
ROUTE_DEVIATION_THRESHOLD = float(os.getenv('ROUTE_DEVIATION_THRESHOLD', '25'))
MAJOR_DEVIATION_THRESHOLD = float(os.getenv('MAJOR_DEVIATION_THRESHOLD', '75'))
MAJOR_DEVIATION_MIN_TIME = float(os.getenv('MAJOR_DEVIATION_MIN_TIME', '3'))
GROSS_DEVIATION_THRESHOLD = float(os.getenv('GROSS_DEVIATION_THRESHOLD', '150'))
DIRECTION_CHANGE_THRESHOLD = float(os.getenv('DIRECTION_CHANGE_THRESHOLD', '35'))
DECISION_POINT_FACTOR = float(os.getenv('DECISION_POINT_FACTOR', '0.7'))
PERSISTENT_DEVIATION_TIME = float(os.getenv('PERSISTENT_DEVIATION_TIME', '6'))
MIN_DIRECTION_MOVEMENT = float(os.getenv('MIN_DIRECTION_MOVEMENT', '2'))

# Decision points (turns ahead on the route)
DECISION_POINT_TURN_ANGLE = float(os.getenv('DECISION_POINT_TURN_ANGLE', '30'))
DECISION_POINT_LOOKAHEAD_M = float(os.getenv('DECISION_POINT_LOOKAHEAD_M', '50'))
DECISION_POINT_LOOKAHEAD_VERTICES = int(os.getenv('DECISION_POINT_LOOKAHEAD_VERTICES', '5'))

# Off-route strategy: 'projection' (pure geometry) or 'corridor' (shapely buffer)
DEVIATION_STRATEGY = os.getenv('DEVIATION_STRATEGY', 'projection')
CORRIDOR_BUFFER_DISTANCE = float(os.getenv('CORRIDOR_BUFFER_DISTANCE', '25'))

# Recalculation scheduling
MIN_RECALCULATION_INTERVAL = float(os.getenv('MIN_RECALCULATION_INTERVAL', '10'))
MIN_MOVEMENT_THRESHOLD = float(os.getenv('MIN_MOVEMENT_THRESHOLD', '10'))
ROUTE_FETCH_DEBOUNCE = float(os.getenv('ROUTE_FETCH_DEBOUNCE', '0.5'))
ROUTE_FETCH_MIN_MOVEMENT = float(os.getenv('ROUTE_FETCH_MIN_MOVEMENT', '30'))

# Route splitting / arrival
ROUTE_SPLIT_THRESHOLD = float(os.getenv('ROUTE_SPLIT_THRESHOLD', '20'))
ARRIVAL_THRESHOLD = float(os.getenv('ARRIVAL_THRESHOLD', '10'))
ARRIVAL_GRACE_PERIOD = float(os.getenv('ARRIVAL_GRACE_PERIOD', '2'))
INSTRUCTION_DISTANCE_LIMIT = float(os.getenv('INSTRUCTION_DISTANCE_LIMIT', '50'))

# Routing providers
OSRM_URL = os.getenv('OSRM_URL', 'https://routing.openstreetmap.de/routed-foot/route/v1/walking')
ORS_URL = os.getenv('ORS_URL', 'https://api.openrouteservice.org/v2/directions/foot-walking/geojson')
ORS_API_KEY = os.getenv('ORS_API_KEY', '')
GOOGLE_API_KEY = os.getenv('GOOGLE_API_KEY', '')
ROUTING_TIMEOUT = float(os.getenv('ROUTING_TIMEOUT', '8'))
WALKING_SPEED = float(os.getenv('WALKING_SPEED', '1.4'))
PROVIDER_FAILURE_THRESHOLD = int(os.getenv('PROVIDER_FAILURE_THRESHOLD', '3'))
PROVIDER_COOLDOWN = float(os.getenv('PROVIDER_COOLDOWN', '60'))

# GPS fix filtering
GPS_MIN_ACCURACY = float(os.getenv('GPS_MIN_ACCURACY', '100'))
GPS_MIN_FIX_INTERVAL = float(os.getenv('GPS_MIN_FIX_INTERVAL', '0.5'))
GPS_MAX_SPEED = float(os.getenv('GPS_MAX_SPEED', '50'))
GPS_MAX_GAP = float(os.getenv('GPS_MAX_GAP', '30'))
GPS_MAX_CONSECUTIVE_REJECTIONS = int(os.getenv('GPS_MAX_CONSECUTIVE_REJECTIONS', '5'))
GPS_SMOOTHING_FACTOR = float(os.getenv('GPS_SMOOTHING_FACTOR', '0.3'))

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

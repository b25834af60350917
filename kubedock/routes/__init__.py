"""Docker Engine API request bodies, endpoint handlers and the dispatching router."""
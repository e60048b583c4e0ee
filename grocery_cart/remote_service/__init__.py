# Reference remote cart service

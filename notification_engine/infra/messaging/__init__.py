"""RabbitMQ messaging via FastStream."""

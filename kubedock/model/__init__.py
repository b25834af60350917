"""Container, exec, network and image records, resource quantities and the in-memory database."""
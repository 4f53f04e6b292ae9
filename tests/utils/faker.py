from faker import Faker

fake = Faker()
